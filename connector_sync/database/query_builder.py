import json
import re
from typing import Any

_PARAM_PATTERN = re.compile(r"(?<!:):(\w+)")


def bind_named(query: str, params: dict[str, Any]) -> tuple[str, list[Any]]:
    """
    Convert named parameters (:param_name) to positional parameters ($1, $2, ...)
    for asyncpg. Postgres casts (``::jsonb``) are left untouched.
    """
    names = _PARAM_PATTERN.findall(query)
    values: list[Any] = []
    positions: dict[str, int] = {}

    for name in names:
        if name in positions:
            continue
        if name not in params:
            raise ValueError(f"Missing parameter: {name}")
        values.append(params[name])
        positions[name] = len(values)

    result_query = _PARAM_PATTERN.sub(lambda m: f"${positions[m.group(1)]}", query)
    return result_query, values


def load_json_columns(data: dict[str, Any], *columns: str) -> dict[str, Any]:
    for column in columns:
        value = data.get(column)
        if isinstance(value, str):
            data[column] = json.loads(value)
    return data
