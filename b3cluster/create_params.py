"""Default and override parameters for meeting create requests."""

from __future__ import annotations

from typing import Mapping, MutableMapping

from .settings import FrontendSettings

PARAM_DISABLED_FEATURES = "disabledFeatures"


def update_create_params(
    params: MutableMapping[str, str], settings: FrontendSettings
) -> None:
    """Apply a frontend's overrides and defaults to create parameters in place."""
    defaults = settings.create_default_params
    params.update(settings.create_override_params)
    for key, value in defaults.items():
        if key == PARAM_DISABLED_FEATURES:
            continue
        params.setdefault(key, value)
    merge_disabled_features(params, defaults)


def merge_disabled_features(
    params: MutableMapping[str, str], defaults: Mapping[str, str]
) -> None:
    """Append the default disabled features to the request's, without duplicates."""
    default_features = defaults.get(PARAM_DISABLED_FEATURES)
    if default_features is None:
        return
    requested = params.get(PARAM_DISABLED_FEATURES, "")
    features = requested.split(",") + default_features.split(",")
    merged = dict.fromkeys(feature for feature in features if feature)
    params[PARAM_DISABLED_FEATURES] = ",".join(merged)