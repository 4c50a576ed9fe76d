import logging
import logging.config
import re

SECRET_PATTERNS = [
    re.compile(r"(?i)(-CertificatePassword\s+\(ConvertTo-SecureString\s+-String\s+)('[^']*'|\S+)"),
    re.compile(r"(?i)(-(?:CertificatePassword|ClientSecret|AccessToken)\s+)('[^']*'|\S+)"),
    re.compile(r"(?i)((?:password|secret|token)\s*[=:]\s*)([^,\s]+)"),
    re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._~+/-]+=*)"),
]


class SecretSafeFilter(logging.Filter):
    def _sanitize(self, value: object) -> object:
        if not isinstance(value, str):
            return value

        redacted = value
        for pattern in SECRET_PATTERNS:
            redacted = pattern.sub(r"\1[REDACTED]", redacted)
        return redacted

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._sanitize(record.msg)

        if isinstance(record.args, tuple):
            record.args = tuple(self._sanitize(item) for item in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: self._sanitize(value) for key, value in record.args.items()}

        return True


def setup_logging() -> None:
    from exo_housekeeping.core.settings import get_settings

    settings = get_settings()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "secret_safe": {
                    "()": "exo_housekeeping.core.logging.SecretSafeFilter",
                }
            },
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["secret_safe"],
                }
            },
            "loggers": {
                "": {
                    "handlers": ["console"],
                    "level": settings.log_level.upper(),
                },
            },
        }
    )
