"""EmailEnhancer component: AI rewrite of outreach emails with key rotation."""

import re
from collections.abc import Awaitable, Callable

from autosendr.domain.components.key_manager import KeyManager, NoKeyAvailableError
from autosendr.domain.interfaces.key_store import KeyStoreError
from autosendr.domain.interfaces.observability_manager import ObservabilityManager
from autosendr.domain.interfaces.provider_adapter import ProviderAdapter
from autosendr.domain.models.api_key_record import FailureReason, mask_key
from autosendr.domain.models.enhancement import EnhancementRequest, EnhancementResult
from autosendr.domain.models.provider_error import ProviderError

RulesProvider = Callable[[], Awaitable[str | None]]

DEFAULT_AI_RULES = """You are an email enhancement assistant. Your job is to improve job application emails while following these strict rules:

RULES:
1. NEVER add new content, projects, or information not already present
2. ONLY fix grammar, spelling, and awkward phrasing from placeholder replacements
3. Keep the same tone, style, and personality
4. Maintain all existing links, projects, and specific details exactly as they are
5. Do not make the email longer - keep it concise
6. Do not change the core message or structure
7. Only improve readability and flow

WHAT TO FIX:
- Grammar errors from placeholder replacements
- Awkward transitions between sentences
- Minor spelling mistakes
- Improve sentence flow without changing meaning

WHAT NOT TO DO:
- Add new sentences or paragraphs
- Change project descriptions
- Add new qualifications or skills
- Modify links or contact information
- Change the greeting or closing
- Add buzzwords or corporate speak

Keep the email authentic and personal. Only make minimal improvements."""

_SUBJECT_LINE = re.compile(r"Subject:\s*(.+)")
_BODY_BLOCK = re.compile(r"Body:\s*([\s\S]+)")

# failure reason -> (error, message)
_FAILURE_RESULTS: dict[FailureReason, tuple[str, str]] = {
    FailureReason.RateLimitExceeded: (
        "AI rate limit reached",
        "Rate limit exceeded on current key, will try next key",
    ),
    FailureReason.QuotaExceeded: (
        "AI quota exceeded",
        "Quota limit reached on current key",
    ),
}
_GENERIC_FAILURE = ("AI enhancement failed", "AI temporarily unavailable, trying next key")


def build_prompt(rules: str, request: EnhancementRequest) -> str:
    """Assemble the single user message sent to the provider."""
    return f"""{rules}

Company: {request.company_name}
Position: {request.position or "Software Developer"}
Recruiter: {request.recruiter_name or "there"}

Email to enhance:
Subject: {request.subject}
Body: {request.body}

Please enhance this email following the rules above. Return the result in this exact format:
Subject: [enhanced subject]
Body: [enhanced body]"""


def parse_completion(completion: str, subject: str, body: str) -> tuple[str, str]:
    """Extract 'Subject:' and 'Body:' from a reply, keeping originals for missing parts."""
    subject_match = _SUBJECT_LINE.search(completion)
    body_match = _BODY_BLOCK.search(completion)
    enhanced_subject = subject_match.group(1).strip() if subject_match else subject
    enhanced_body = body_match.group(1).strip() if body_match else body
    return enhanced_subject or subject, enhanced_body or body


class EmailEnhancer:
    """Rewrites an email through the AI provider using a rotated key.

    Every provider attempt is reported to the KeyManager exactly once, on
    the key that was actually used. Failures never raise: the original text
    comes back with ai_enhanced=False and an error label.

    Example:
        ```python
        enhancer = EmailEnhancer(key_manager, GroqAdapter(), observability)
        result = await enhancer.enhance(
            EnhancementRequest(subject="Hi", body="...", company_name="Acme", use_ai=True)
        )
        ```
    """

    def __init__(
        self,
        key_manager: KeyManager,
        provider: ProviderAdapter,
        observability_manager: ObservabilityManager,
        rules_provider: RulesProvider | None = None,
    ) -> None:
        """Initialize EmailEnhancer.

        Args:
            key_manager: Source of keys and sink for call outcomes.
            provider: Adapter performing the completion call.
            observability_manager: Logging.
            rules_provider: Async callable returning the active rules text,
                or None to use the built-in rules.
        """
        self._key_manager = key_manager
        self._provider = provider
        self._observability = observability_manager
        self._rules_provider = rules_provider

    async def load_rules(self) -> str:
        """Active rules text; the built-in rules if none are stored or lookup fails."""
        if self._rules_provider is None:
            return DEFAULT_AI_RULES
        try:
            rules = await self._rules_provider()
        except Exception as e:
            await self._observability.log(
                level="ERROR",
                message="Error fetching AI rules, using defaults",
                context={"error": str(e)},
            )
            return DEFAULT_AI_RULES
        return rules if rules and rules.strip() else DEFAULT_AI_RULES

    async def enhance(self, request: EnhancementRequest) -> EnhancementResult:
        if not request.use_ai:
            return EnhancementResult(
                subject=request.subject,
                body=request.body,
                ai_enhanced=False,
                message="AI enhancement disabled",
            )

        try:
            api_key = await self._key_manager.acquire_key()
        except NoKeyAvailableError as e:
            return EnhancementResult(
                subject=request.subject,
                body=request.body,
                ai_enhanced=False,
                error="AI quota exceeded",
                message=str(e),
            )
        except KeyStoreError as e:
            await self._observability.log(
                level="ERROR",
                message="Key store unavailable, skipping AI enhancement",
                context={"error": str(e)},
            )
            return self._failure(request, FailureReason.GenericError)

        try:
            remaining_today: int | None = (await self._key_manager.get_key_stats()).remaining_today
        except KeyStoreError:
            remaining_today = None
        await self._observability.log(
            level="INFO",
            message="Using API key",
            context={"key": mask_key(api_key), "remaining_today": remaining_today},
        )

        prompt = build_prompt(await self.load_rules(), request)

        try:
            completion = await self._provider.complete(prompt, api_key)
        except ProviderError as e:
            await self._observability.log(
                level="ERROR",
                message="Error enhancing email",
                context={
                    "key": mask_key(api_key),
                    "failure_reason": e.failure_reason.value,
                    "provider_code": e.provider_code,
                    "error": e.message,
                },
            )
            await self._record_usage(
                api_key, False, failure_reason=e.failure_reason, retry_after=e.retry_after
            )
            return self._failure(request, e.failure_reason)
        except Exception as e:
            await self._observability.log(
                level="ERROR",
                message="Unexpected error enhancing email",
                context={"key": mask_key(api_key), "error": str(e)},
            )
            await self._record_usage(api_key, False, failure_reason=FailureReason.GenericError)
            return self._failure(request, FailureReason.GenericError)

        if not completion:
            await self._observability.log(
                level="WARNING",
                message="No response from AI",
                context={"key": mask_key(api_key)},
            )
            await self._record_usage(api_key, False, failure_reason=FailureReason.NoResponse)
            return self._failure(request, FailureReason.NoResponse)

        subject, body = parse_completion(completion, request.subject, request.body)
        await self._record_usage(api_key, True)

        return EnhancementResult(
            subject=subject,
            body=body,
            ai_enhanced=True,
            message="Email enhanced successfully",
        )

    async def _record_usage(
        self,
        api_key: str,
        success: bool,
        failure_reason: FailureReason | None = None,
        retry_after: int | None = None,
    ) -> None:
        # A lost outcome must not replace the result the caller already has
        try:
            await self._key_manager.record_usage(
                api_key, success, failure_reason=failure_reason, retry_after=retry_after
            )
        except KeyStoreError as e:
            await self._observability.log(
                level="ERROR",
                message="Failed to record key usage",
                context={"key": mask_key(api_key), "success": success, "error": str(e)},
            )

    @staticmethod
    def _failure(request: EnhancementRequest, reason: FailureReason) -> EnhancementResult:
        error, message = _FAILURE_RESULTS.get(reason, _GENERIC_FAILURE)
        return EnhancementResult(
            subject=request.subject,
            body=request.body,
            ai_enhanced=False,
            error=error,
            message=message,
        )
