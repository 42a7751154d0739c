from fastapi import FastAPI

from liveorders.main import app

# 内部路由白名单（FastAPI/Starlette 自带）
_INTERNAL_PATH_PREFIXES = ("/openapi.json", "/docs", "/redoc")


def _iter_routes(app: FastAPI):
    for r in app.routes:
        methods = getattr(r, "methods", None) or []
        path = getattr(r, "path", getattr(r, "path_format", None))
        endpoint = getattr(r, "endpoint", None)
        yield methods, path, endpoint


def _is_internal(path: str | None) -> bool:
    if not path:
        return True
    return any(path.startswith(p) for p in _INTERNAL_PATH_PREFIXES)


def test_no_conflicting_method_path_pairs():
    """
    同一 (METHOD, PATH) 不允许挂到不同 endpoint（阴影路由）。
    """
    mapping: dict[tuple[str, str], set[int]] = {}
    for methods, path, endpoint in _iter_routes(app):
        if _is_internal(path):
            continue
        for m in methods:
            mapping.setdefault((m.upper(), path), set()).add(id(endpoint))

    conflicts = {key: ids for key, ids in mapping.items() if len(ids) > 1}
    assert not conflicts, f"Conflicting (METHOD, PATH) routes: {sorted(conflicts.keys())}"


def test_expected_routes_are_mounted():
    paths = {(m, p) for methods, p, _ in _iter_routes(app) for m in methods}
    for key in [
        ("POST", "/orders/items"),
        ("DELETE", "/orders/items/{item_id}"),
        ("POST", "/orders/items/{item_id}/minus"),
        ("GET", "/orders/{order_id}"),
        ("POST", "/orders/{order_id}/pay"),
        ("POST", "/orders/{order_id}/cancel"),
        ("POST", "/orders/{order_id}/expire"),
        ("POST", "/orders/ship"),
        ("GET", "/orders/by-number/{order_number}/total"),
        ("GET", "/orders/by-message/{message_id}/status"),
        ("POST", "/messenger/resolve"),
        ("GET", "/inventory/configurations/{configuration_id}"),
        ("PUT", "/inventory/configurations/{configuration_id}/quantity"),
        ("POST", "/inventory/configurations/{configuration_id}/release"),
        ("GET", "/waiting"),
        ("GET", "/metrics"),
        ("GET", "/healthz"),
    ]:
        assert key in paths, key
