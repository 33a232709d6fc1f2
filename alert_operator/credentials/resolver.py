"""API key resolution: an inline key, or an entry in a stored secret."""

import logging

from alert_operator.errors.collector import CredentialError
from alert_operator.models.condition import ApiKeySecret
from alert_operator.store.resources import ObjectNotFound, ResourceStore

logger = logging.getLogger(__name__)

VISIBLE_KEY_CHARS = 8


def partial_api_key(api_key: str) -> str:
    """Mask an API key for logging, keeping only its tail."""
    if len(api_key) <= VISIBLE_KEY_CHARS:
        return "*" * len(api_key)
    return "*" * (len(api_key) - VISIBLE_KEY_CHARS) + api_key[-VISIBLE_KEY_CHARS:]


def resolve_credential(
    api_key: str,
    secret_ref: ApiKeySecret,
    store: ResourceStore,
) -> str:
    """
    Return the API key to use. A non-empty inline key wins; otherwise the
    referenced secret entry is read.
    """
    if api_key:
        return api_key

    if secret_ref.is_empty():
        raise CredentialError("either api_key or api_key_secret must be set")

    if not (secret_ref.name and secret_ref.namespace and secret_ref.key_name):
        raise CredentialError(
            "api_key_secret needs name, namespace and key_name "
            f"(got {secret_ref.namespace!r}/{secret_ref.name!r} key {secret_ref.key_name!r})"
        )

    try:
        data = store.get_secret(secret_ref.namespace, secret_ref.name)
    except ObjectNotFound as e:
        logger.error("failed to retrieve secret %s/%s", secret_ref.namespace, secret_ref.name)
        raise CredentialError(f"api key secret unavailable: {e}") from e

    value = data.get(secret_ref.key_name, "")
    if not value:
        raise CredentialError(
            f"secret {secret_ref.namespace}/{secret_ref.name} has no value "
            f"for key {secret_ref.key_name!r}"
        )
    return value
