import jsonpickle
from kubernetes.utils.quantity import parse_quantity
from typing import Dict, Optional


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data):
    """
    Returns a canonical JSON representation of a dictionary.

    Keys are sorted recursively so the representation stays stable even when
    key order varies between the desired object and the one read back from
    the API server.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def label_selector(labels: Optional[Dict[str, str]]) -> Optional[str]:
    """Convert a label dict to the `k=v,k2=v2` selector format."""
    if not labels:
        return None
    return ",".join(f"{k}={v}" for k, v in labels.items())


def canonical_quantities(values: Optional[Dict]) -> Dict[str, str]:
    """Normalize resource quantities so `0.5`, `500m` and `"0.5"` compare equal.

    The API server stores quantities in canonical form, so the values read
    back rarely match what was written. Unparseable values are kept as strings.
    """
    result = {}
    for key, value in (values or {}).items():
        try:
            result[key] = str(parse_quantity(str(value)).normalize())
        except ValueError:
            result[key] = str(value)
    return result
