"""Derive Python identifiers from OpenAPI names.

Conventions in the generated module:
  - types       -> PascalCase        (article-comment   -> ArticleComment)
  - handlers    -> snake_case + suffix (getArticle      -> get_article_handler)
  - fields/vars -> snake_case, keywords get a trailing underscore (class -> class_)

Operations without an operationId get one from method + path:
  GET    /articles              -> listArticles
  GET    /articles/{id}         -> getArticle
  POST   /articles              -> createArticle
  PATCH  /articles/{id}         -> updateArticle
  DELETE /articles/{id}         -> deleteArticle
  GET    /articles/{id}/comments -> getArticlesComments
"""

from __future__ import annotations

import keyword
import re

_METHOD_VERBS: dict[str, str] = {
    "get": "list",
    "post": "create",
    "put": "update",
    "patch": "update",
    "delete": "delete",
    "head": "head",
    "options": "options",
}

_WORD_SPLIT = re.compile(r"[^0-9a-zA-Z]+")

# Module-level names every generated module defines or imports
_RESERVED_TYPES = frozenset({
    "Any", "Optional", "RequestValidationError", "ROUTES", "ValueError", "NotImplementedError",
})


def _pluralize(word: str) -> str:
    """Return the plural form of a resource name."""
    if word.endswith("s"):
        return word
    if word.endswith("y") and word[-2:-1] not in ("a", "e", "i", "o", "u"):
        return word[:-1] + "ies"
    return word + "s"


def _singularize(word: str) -> str:
    """Return the singular form of a resource name."""
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("ses"):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def _camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    return re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1).lower()


def snake_case(name: str) -> str:
    """Convert any OpenAPI name (camelCase, kebab-case, page[size]) to snake_case."""
    name = _camel_to_snake(name)
    name = re.sub(r"[^a-z0-9_]", "_", name)
    name = re.sub(r"_+", "_", name)
    return name.strip("_")


def pascal_case(name: str) -> str:
    """Convert a name to PascalCase, keeping existing inner capitals."""
    return "".join(part[:1].upper() + part[1:] for part in _WORD_SPLIT.split(name) if part)


def camel_case(name: str) -> str:
    """Convert a name to camelCase."""
    pascal = pascal_case(name)
    return pascal[:1].lower() + pascal[1:]


def escape_keyword(name: str) -> str:
    """Append an underscore to names that shadow Python keywords."""
    if keyword.iskeyword(name):
        return f"{name}_"
    return name


def _no_leading_digit(name: str, prefix: str) -> str:
    if name[:1].isdigit():
        return f"{prefix}{name}"
    return name


def type_name(name: str) -> str:
    """Build the class name for a schema."""
    name = escape_keyword(_no_leading_digit(pascal_case(name), "Model"))
    if name in _RESERVED_TYPES:
        return f"{name}_"
    return name


def field_name(name: str) -> str:
    """Build the attribute or local variable name for a wire name."""
    snake = snake_case(name) or "value"
    return escape_keyword(_no_leading_digit(snake, "_"))


def handler_name(operation_id: str) -> str:
    """Build the handler function name for an operation identifier."""
    snake = snake_case(operation_id) or "operation"
    return _no_leading_digit(f"{snake}_handler", "_")


def is_valid_identifier(name: str) -> bool:
    """Check that a name can be emitted as a Python identifier."""
    return name.isidentifier() and not keyword.iskeyword(name)


def _extract_path_parts(path: str) -> list[str]:
    """Extract the literal path segments, dropping {params}."""
    return [p for p in path.strip("/").split("/") if p and not p.startswith("{")]


def build_operation_id(method: str, path: str) -> str:
    """Derive an operation identifier from HTTP method and path.

    Returns a camelCase name like 'listArticles' or 'getArticle'.
    """
    method_lower = method.lower()
    parts = [snake_case(p) for p in _extract_path_parts(path)]
    parts = [p for p in parts if p]
    has_id = any(p.startswith("{") for p in path.split("/") if p)

    if method_lower == "get":
        verb = "get" if has_id else "list"
    else:
        verb = _METHOD_VERBS.get(method_lower, method_lower)

    if not parts:
        return camel_case(f"{verb}_root")

    if len(parts) == 1:
        resource = parts[0]
        if verb == "list":
            resource = _pluralize(resource)
        elif has_id or verb == "create":
            resource = _singularize(resource)
        return camel_case(f"{verb}_{resource}")

    return camel_case(f"{verb}_{'_'.join(parts)}")
