from creator_platform.config import Settings


def test_opp_callback_urls_without_prefix():
    settings = Settings(backend_url="https://api.example.test/", api_prefix="")
    assert settings.opp_notify_url == "https://api.example.test/creator/onboard/notify"
    assert settings.opp_return_url == "https://api.example.test/creator/onboard/return"


def test_opp_callback_urls_follow_api_prefix():
    settings = Settings(backend_url="https://api.example.test", api_prefix="/api/v1")
    assert settings.opp_notify_url == "https://api.example.test/api/v1/creator/onboard/notify"
    assert settings.opp_return_url == "https://api.example.test/api/v1/creator/onboard/return"


def test_allowed_origins_include_frontend_once():
    settings = Settings(frontend_url="https://app.example.test/", cors_origins=["https://app.example.test"])
    assert settings.allowed_origins == ["https://app.example.test"]
