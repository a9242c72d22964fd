import httpx
import openai

from services.image_provider import (
    ContentPolicyError,
    ImageProviderError,
    ImageTimeoutError,
    PayloadTooLargeError,
    map_quality,
    translate_provider_error,
)
from services.prompt_safety import (
    ADULT_PREFIX,
    NO_BODY_FOCUS_SUFFIX,
    is_payload_too_large_message,
    is_safety_error_message,
    sanitize_prompt,
)


class _StatusError(Exception):
    def __init__(self, message, status_code, request_id=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.request_id = request_id


def test_prompt_without_people_is_left_alone():
    assert sanitize_prompt("  A mountain lake at sunrise  ") == "A mountain lake at sunrise"


def test_prompt_with_people_gets_adult_framing():
    result = sanitize_prompt("Portrait of a man in a park")

    assert result.startswith(ADULT_PREFIX)
    assert result.endswith(NO_BODY_FOCUS_SUFFIX)


def test_age_and_sensual_wording_is_neutralised():
    result = sanitize_prompt("sexy woman, 19 years old, on a beach")

    assert "sexy" not in result
    assert "19" not in result
    assert "discreet woman" in result
    # Rewritten age already reads as adult, so no extra prefix.
    assert not result.startswith(ADULT_PREFIX)
    assert result.endswith(NO_BODY_FOCUS_SUFFIX)


def test_portuguese_terms_are_covered():
    result = sanitize_prompt("jovem mulher provocante")

    assert result == f"adult mulher discreet {NO_BODY_FOCUS_SUFFIX}"


def test_message_classifiers():
    assert is_safety_error_message("Your request was rejected by the safety system.")
    assert is_safety_error_message("moderation_blocked")
    assert not is_safety_error_message("rate limit exceeded")
    assert is_payload_too_large_message("413 Request Entity Too Large")
    assert not is_payload_too_large_message("")


def test_quality_mapping():
    assert map_quality("hd") == "high"
    assert map_quality("standard") == "medium"
    assert map_quality("LOW") == "low"
    assert map_quality("ultra") == "auto"


def test_translate_timeout():
    exc = openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/images/generations"))

    assert isinstance(translate_provider_error(exc), ImageTimeoutError)


def test_translate_status_errors():
    too_large = translate_provider_error(_StatusError("Request too big", 413))
    policy = translate_provider_error(_StatusError("Rejected by the safety system", 400, request_id="req_9"))
    rate_limited = translate_provider_error(_StatusError("Rate limit reached", 429))
    unknown = translate_provider_error(RuntimeError("socket closed"))

    assert isinstance(too_large, PayloadTooLargeError)
    assert too_large.status_code == 413
    assert isinstance(policy, ContentPolicyError)
    assert policy.status_code == 400
    assert policy.request_id == "req_9"
    assert type(rate_limited) is ImageProviderError
    assert rate_limited.status_code == 429
    assert type(unknown) is ImageProviderError
    assert unknown.status_code == 502


def test_translate_passes_known_errors_through():
    original = ContentPolicyError("blocked")

    assert translate_provider_error(original) is original
