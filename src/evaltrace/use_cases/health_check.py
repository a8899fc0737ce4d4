"""
Health Check

Performs availability checks for providers and the LLM judge before a run.
"""

from evaltrace.domain.entities import ProviderHealth
from evaltrace.domain.value_objects import CompletionOptions
from evaltrace.infrastructure.providers.base import NoProviderAvailableError, Provider
from evaltrace.infrastructure.providers.registry import ProviderRegistry


HEALTH_CHECK_PROMPT = "Reply with only 'OK' if you can read this message."


def health_check_providers(registry: ProviderRegistry, *, verbose: bool = True) -> tuple[list[str], list[ProviderHealth]]:
    """
    Check availability of every registered provider.

    Args:
        registry: Provider registry
        verbose: Print one status line per provider

    Returns:
        tuple: (list of available provider names, list of all check results)
    """
    if verbose:
        print("=== Provider Health Check ===\n")
    results = registry.check_all()
    available = [r.name for r in results if r.available]

    if verbose:
        for result in results:
            if result.available:
                print(f"  {result.name}... OK")
            else:
                # Display only the first 100 characters of the error message
                error_short = result.error[:100] if result.error else "not configured"
                print(f"  {result.name}... UNAVAILABLE ({error_short})")
        print()
    return available, results


def require_available_provider(registry: ProviderRegistry) -> list[str]:
    """
    Fail before scheduling when no provider can be used.

    Raises:
        NoProviderAvailableError: If no provider is available
    """
    available, _ = health_check_providers(registry, verbose=False)
    if not available:
        raise NoProviderAvailableError(
            "No LLM provider available. Configure an API key or start a local model server."
        )
    return available


def run_judge_health_check(provider: Provider, model: str) -> tuple[bool, str | None]:
    """Execute a health check for the LLM judge.

    Args:
        provider: Judge provider
        model: Judge model name

    Returns:
        (success, error_message): (True, None) on success, (False, error_message) on failure
    """
    try:
        response = provider.complete(
            [{"role": "user", "content": HEALTH_CHECK_PROMPT}],
            CompletionOptions(model=model, temperature=0.0, max_tokens=10),
        )
    except Exception as e:
        return False, f"Judge ({provider.name}/{model}) health check failed: {str(e)[:200]}"
    if response.text:
        return True, None
    return False, f"Judge ({provider.name}/{model}) returned an empty response"
