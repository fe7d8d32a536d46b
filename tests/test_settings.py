import json

from b3cluster.settings import (
    BackendSettings,
    DefaultPresentationSettings,
    FrontendSettings,
)


def test_backend_settings_round_trip():
    settings = BackendSettings(tags=["2.0.0", "sip", "testing"])
    data = settings.to_dict()
    assert data["tags"] == ["2.0.0", "sip", "testing"]
    assert BackendSettings.from_dict(json.loads(json.dumps(data))) == settings


def test_backend_settings_omits_empty_tags():
    assert BackendSettings().to_dict() == {}


def test_backend_settings_from_none():
    assert BackendSettings.from_dict(None) == BackendSettings()


def test_frontend_settings_round_trip():
    settings = FrontendSettings(
        required_tags=["sip"],
        default_presentation=DefaultPresentationSettings(
            url="https://pres.example.com/deck.pdf", force=True
        ),
        create_default_params={
            "duration": "42",
            "disabledFeatures": "chat,captions,virtualBackgrounds",
        },
        create_override_params={"logo": "override-logo"},
    )
    data = json.loads(json.dumps(settings.to_dict()))
    restored = FrontendSettings.from_dict(data)
    assert restored == settings
    assert restored.create_default_params["duration"] == "42"


def test_frontend_settings_json_keys():
    settings = FrontendSettings(
        required_tags=["a"],
        default_presentation=DefaultPresentationSettings(url="u"),
        create_default_params={"k": "v"},
        create_override_params={"o": "p"},
    )
    data = settings.to_dict()
    assert set(data) == {
        "required_tags",
        "default_presentation",
        "create_default_params",
        "create_override_params",
    }
    assert data["default_presentation"] == {"url": "u", "force": False}


def test_frontend_settings_omits_empty():
    assert FrontendSettings().to_dict() == {}
    assert FrontendSettings.from_dict({}) == FrontendSettings()


def test_frontend_settings_to_dict_copies():
    settings = FrontendSettings(create_default_params={"k": "v"})
    data = settings.to_dict()
    data["create_default_params"]["k"] = "changed"
    assert settings.create_default_params == {"k": "v"}