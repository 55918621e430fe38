from typing import Optional


def is_authorized(
    actor_id: int | str | None,
    owner_identity: Optional[str],
    fallback_identity: Optional[str] = None,
) -> bool:
    """Actor must match the stored owner id or the configured fallback id."""
    if actor_id is None:
        return False
    actor = str(actor_id).strip()
    if not actor:
        return False
    allowed = {str(identity).strip() for identity in (owner_identity, fallback_identity) if identity}
    return actor in allowed


def format_denial(actor_id: int | str | None) -> str:
    return f"⚠️ Acceso denegado. Tu ID es {actor_id}."
