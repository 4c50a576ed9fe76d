import logging

from exo_housekeeping.core.logging import SecretSafeFilter, setup_logging


def _filtered_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.filters = []
    logger.addFilter(SecretSafeFilter())
    return logger


def test_secret_filter_redacts_certificate_password(caplog):
    logger = _filtered_logger("test.cert")

    with caplog.at_level(logging.INFO, logger="test.cert"):
        logger.info(
            "Running Connect-ExchangeOnline -CertificatePassword "
            "(ConvertTo-SecureString -String 'hunter2' -AsPlainText -Force)"
        )

    assert "hunter2" not in caplog.text
    assert "[REDACTED]" in caplog.text


def test_secret_filter_redacts_token_assignment(caplog):
    logger = _filtered_logger("test.token")

    with caplog.at_level(logging.INFO, logger="test.token"):
        logger.info("retrying with token=abc.def.ghi for tenant")

    assert "abc.def.ghi" not in caplog.text
    assert "token=[REDACTED]" in caplog.text


def test_secret_filter_redacts_args(caplog):
    logger = _filtered_logger("test.args")

    with caplog.at_level(logging.INFO, logger="test.args"):
        logger.info("Running %s", "Connect-ExchangeOnline -AccessToken eyJ0eXAi.payload")

    assert "eyJ0eXAi.payload" not in caplog.text
    assert "-AccessToken [REDACTED]" in caplog.text


def test_secret_filter_leaves_ordinary_messages(caplog):
    logger = _filtered_logger("test.plain")

    with caplog.at_level(logging.INFO, logger="test.plain"):
        logger.info("Set-MailPublicFolder -Identity 'pf@contoso.com' -Alias 'sales734'")

    assert "sales734" in caplog.text
    assert "[REDACTED]" not in caplog.text


def test_setup_logging_uses_configured_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level

    try:
        setup_logging()

        assert root.level == logging.DEBUG
        handler_filters = [f for h in root.handlers for f in h.filters]
        assert any(isinstance(f, SecretSafeFilter) for f in handler_filters)
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
