"""Declarative schema markers.

These decorators do nothing at runtime beyond recording their arguments on
the decorated object. The inference engine reads them statically from
source, so their arguments must be literals.

    @response_field("id", type="integer", required=True)
    @response_field("email", type="string", format="email", example="a@b.co")
    class UserOut:
        ...

    @map_name("camel_case")
    class Profile(BaseModel):
        display_name: str
"""

from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

NAME_STYLES = ("snake_case", "camel_case", "pascal_case", "kebab_case")

_FIELDS_ATTR = "__schemascope_fields__"


def _record(kind: str, spec: dict[str, Any]) -> Callable[[T], T]:
    def decorator(target: T) -> T:
        existing = list(getattr(target, _FIELDS_ATTR, ()))
        existing.append((kind, spec))
        setattr(target, _FIELDS_ATTR, existing)
        return target

    return decorator


def response_field(
    name: str,
    type: str = "string",
    format: Optional[str] = None,
    required: bool = True,
    nullable: bool = False,
    example: Any = None,
    description: Optional[str] = None,
    deprecated: bool = False,
    enum: Optional[list[Any]] = None,
) -> Callable[[T], T]:
    """Declare one field of the data a class or handler produces."""
    return _record("response", dict(locals()))


def body_param(
    name: str,
    type: str = "string",
    format: Optional[str] = None,
    required: bool = True,
    nullable: bool = False,
    example: Any = None,
    description: Optional[str] = None,
    deprecated: bool = False,
    enum: Optional[list[Any]] = None,
) -> Callable[[T], T]:
    """Declare one field of the data a handler accepts."""
    return _record("body", dict(locals()))


def map_name(style: str) -> Callable[[T], T]:
    """Rename every output field of a class to ``style``."""
    if style not in NAME_STYLES:
        raise ValueError(f"Unknown name style {style!r}; expected one of {', '.join(NAME_STYLES)}")

    def decorator(target: T) -> T:
        setattr(target, "__schemascope_name_style__", style)
        return target

    return decorator
