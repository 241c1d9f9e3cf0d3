import re
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Record

REDACTED = "[REDACTED]"

# Credentials that can show up in botocore errors or presigned S3 urls
CREDENTIAL_PATTERNS = {
    "access_key_id": r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b",
    "secret_access_key": r"(?i)aws_?secret_?access_?key\s*[=:]\s*['\"]?[0-9a-zA-Z/+]{40}['\"]?",
    "session_token": r"(?i)(?:aws_?session_?token|x-amz-security-token)\s*[=:]\s*['\"]?[0-9a-zA-Z/+=%]{40,}['\"]?",
    "presigned_signature": r"(?i)x-amz-signature=[0-9a-f]{64}",
    "presigned_credential": r"(?i)x-amz-credential=[^&\s]+",
}


class SensitiveLogFilter:
    """Masks AWS credentials in log messages.

    The built-in patterns are shared by every filter, configured values are
    added with `hide_sensitive_strings` once the settings are loaded.
    """

    compiled_patterns: list[re.Pattern[str]] = [
        re.compile(pattern) for pattern in CREDENTIAL_PATTERNS.values()
    ]

    def hide_sensitive_strings(self, *tokens: str) -> None:
        for token in tokens:
            token = token.strip()
            if token:
                self.compiled_patterns.append(re.compile(re.escape(token)))

    def mask_string(self, string: str, full_hide: bool = False) -> str:
        def keep_prefix(match: re.Match[str]) -> str:
            return match.group()[:6] + REDACTED

        replacement: Callable[[re.Match[str]], str] | str = (
            REDACTED if full_hide else keep_prefix
        )
        for pattern in self.compiled_patterns:
            string = pattern.sub(replacement, string)
        return string

    def mask_object(self, obj: Any, full_hide: bool = False) -> Any:
        match obj:
            case str():
                return self.mask_string(obj, full_hide)
            case list() | tuple():
                return type(obj)(self.mask_object(value, full_hide) for value in obj)
            case BaseException():
                return self.mask_string(str(obj), full_hide)
            case dict():
                return {
                    key: self.mask_object(value, full_hide)
                    for key, value in obj.items()
                }
        return obj

    def create_filter(self) -> Callable[["Record"], bool]:
        def _filter(record: "Record") -> bool:
            record["message"] = self.mask_string(record["message"])
            return True

        return _filter


sensitive_log_filter = SensitiveLogFilter()
