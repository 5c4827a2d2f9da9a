def mask_email(e: str | None) -> str | None:
    if not e:
        return None
    local, _, domain = e.partition("@")
    if not domain:
        return e
    if len(local) <= 2:
        masked = local[0:1] + "***"
    else:
        masked = local[0] + "***" + local[-1]
    return masked + "@" + domain


def display_name(first: str | None, last: str | None, anonymous: bool) -> str:
    if anonymous:
        return "Anonymous"
    return f"{first or ''} {(last or '')[:1]}".strip() or "Anonymous"
