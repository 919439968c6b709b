# utils/helpers.py
def safe_strip(value):
    """Safely strip a string value, handling None"""
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    return value


def pick_fields(data, allowed):
    """Keep only the allowed keys of a request payload, stripping strings"""
    if not data:
        return {}
    return {key: safe_strip(data[key]) for key in allowed if key in data}
