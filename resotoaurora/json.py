import json
from typing import TypeVar, Any, Type

import attrs
import cattrs
from cattrs import override
from cattrs.gen import make_dict_unstructure_fn

from resotoaurora.logger import log
from resotoaurora.types import Json

AnyT = TypeVar("AnyT")

converter = cattrs.Converter()


def _unstructure_public(cls: type) -> Any:
    # attributes with a leading underscore are runtime only and never persisted
    hidden = {a.name: override(omit=True) for a in attrs.fields(cls) if a.name.startswith("_")}
    return make_dict_unstructure_fn(cls, converter, **hidden)


converter.register_unstructure_hook_factory(attrs.has, _unstructure_public)


def drop_nulls(js: Any) -> Any:
    if isinstance(js, dict):
        return {k: drop_nulls(v) for k, v in js.items() if v is not None}
    elif isinstance(js, list):
        return [drop_nulls(v) for v in js]
    return js


def to_json(node: Any, strip_nulls: bool = False) -> Json:
    js = converter.unstructure(node)
    return drop_nulls(js) if strip_nulls else js


def to_json_str(node: Any, strip_nulls: bool = False) -> str:
    return json.dumps(to_json(node, strip_nulls), indent=2, sort_keys=True)


def from_json(js: Any, clazz: Type[AnyT]) -> AnyT:
    """Structure plain json into the given class. Errors are logged and raised."""
    try:
        return converter.structure(js, clazz)
    except Exception as e:
        log.debug(f"Can not read {clazz.__name__} from {js}: {e}")
        raise
