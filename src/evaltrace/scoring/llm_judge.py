"""
LLM Judge scoring logic

Implements LLMJudgeScorer, which uses a separate model (judge) for scoring.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from evaltrace.infrastructure.providers.base import Provider
    from evaltrace.infrastructure.rate_limiter import TokenBucketRateLimiter

from evaltrace.cost_calc import estimate_request_tokens
from evaltrace.domain.value_objects import CompletionOptions, EvalVerdict
from evaltrace.scoring.text_scorers import strip_reasoning

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = ["relevance", "accuracy"]


class LLMJudgeError(Exception):
    """Error raised during LLM scoring"""
    pass


class LLMJudgeScorer:
    """
    Scorer that uses an LLM as a judge

    Sends the original prompt, the response and the criteria to a judge model
    and parses its SCORE / PASS / REASON reply.
    """

    _SCORE_RE = re.compile(r"SCORE:\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
    _PASS_RE = re.compile(r"PASS:\s*(YES|NO)", re.IGNORECASE)
    _REASON_RE = re.compile(r"REASON:\s*(.+?)(?:\n|$)", re.IGNORECASE | re.DOTALL)

    def __init__(
        self,
        provider: Provider,
        model: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 200,
        pass_threshold: float = 0.7,
        rate_limiter: TokenBucketRateLimiter | None = None,
    ) -> None:
        self._provider = provider
        self._rate_limiter = rate_limiter
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.pass_threshold = pass_threshold

    def judge(
        self,
        prompt: str,
        actual: str,
        *,
        reference: str | None = None,
        criteria: list[str] | str | None = None,
    ) -> EvalVerdict:
        """
        Have the judge score the response

        Args:
            prompt: Original prompt given to the model under test
            actual: Response to evaluate (already sanitized)
            reference: Optional reference answer
            criteria: Criteria list (default: relevance, accuracy)

        Returns:
            EvalVerdict with eval_type "llm_judge"

        Raises:
            LLMJudgeError: When the judge call fails
        """
        messages = [{"role": "user", "content": self._build_prompt(prompt, actual, reference, criteria)}]
        options = CompletionOptions(model=self.model, temperature=self.temperature, max_tokens=self.max_tokens)

        def call():
            return self._provider.complete(messages, options)

        try:
            if self._rate_limiter is not None:
                result = self._rate_limiter.admit(call, estimate_request_tokens(messages, self.max_tokens))
            else:
                result = call()
        except Exception as e:
            raise LLMJudgeError(str(e)) from e

        return self._parse_verdict(result.text)

    @staticmethod
    def _build_prompt(prompt: str, actual: str, reference: str | None, criteria) -> str:
        """Build the judge prompt"""
        if not criteria:
            criteria_list = DEFAULT_CRITERIA
        elif isinstance(criteria, str):
            criteria_list = [criteria]
        else:
            criteria_list = [str(c) for c in criteria]

        parts: list[str] = [
            "You are an evaluation judge. Grade the following response based on these "
            f"criteria: {', '.join(criteria_list)}.",
            "",
            f"QUESTION/PROMPT:\n{prompt}",
            "",
            f"RESPONSE TO EVALUATE:\n{actual}",
            "",
        ]
        if reference:
            parts.append(f"EXPECTED/REFERENCE (if helpful):\n{reference}")
            parts.append("")
        parts.extend([
            "Instructions:",
            "1. Evaluate the response against each criterion",
            "2. Give a score from 0-100",
            "3. Provide brief reasoning",
            "",
            "Respond in this exact format:",
            "SCORE: [number 0-100]",
            "PASS: [YES or NO]",
            "REASON: [one sentence explanation]",
        ])
        return "\n".join(parts)

    def _parse_verdict(self, raw: str) -> EvalVerdict:
        """
        Extract score, pass and reason from the judge's reply

        Missing SCORE -> 0.5; missing PASS -> score >= pass_threshold;
        missing REASON -> "LLM judge evaluation".
        """
        text = strip_reasoning(raw)

        m = self._SCORE_RE.search(text)
        score = self._clamp(float(m.group(1)) / 100) if m else 0.5

        m = self._PASS_RE.search(text)
        passed = m.group(1).upper() == "YES" if m else score >= self.pass_threshold

        m = self._REASON_RE.search(text)
        reason = m.group(1).strip() if m else "LLM judge evaluation"

        return EvalVerdict(
            passed=passed,
            score=score,
            reason=reason,
            eval_type="llm_judge",
            details={"judge_response": text[:500]},
        )

    @staticmethod
    def _clamp(value: float) -> float:
        """Clamp score to the range 0.0-1.0"""
        return max(0.0, min(1.0, value))
