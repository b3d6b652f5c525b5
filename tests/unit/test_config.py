from signal_hub.config import Settings


def test_client_url_always_allowed():
    settings = Settings(CLIENT_URL="http://localhost:3000", CORS_ALLOWED_ORIGINS=["https://chat.example"])

    assert settings.allowed_origins() == ["https://chat.example", "http://localhost:3000"]


def test_client_url_not_duplicated():
    settings = Settings(CLIENT_URL="https://chat.example", CORS_ALLOWED_ORIGINS=["https://chat.example"])

    assert settings.allowed_origins() == ["https://chat.example"]


def test_development_pool_is_capped():
    settings = Settings(environment="development", DB_POOL_MIN_SIZE=4, DB_POOL_MAX_SIZE=20)

    config = settings.get_db_pool_config()

    assert config["min_size"] == 2
    assert config["max_size"] == 5
    assert config["timeout"] == 15.0


def test_production_pool_uses_settings():
    settings = Settings(environment="production", DB_POOL_MIN_SIZE=4, DB_POOL_MAX_SIZE=20)

    config = settings.get_db_pool_config()

    assert config["min_size"] == 4
    assert config["max_size"] == 20
