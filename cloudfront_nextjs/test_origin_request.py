"""Routing template behaviour: match precedence, prefix stripping, handler shape."""

from __future__ import annotations

from cloudfront_nextjs import origin_request


def _event(uri: str) -> dict:
    return {"Records": [{"cf": {"request": {"uri": uri, "method": "GET", "headers": {}}}}]}


def test_dynamic_route_wins_over_static_route_for_same_uri():
    routes = origin_request.compile_routes(
        {
            "dynamicRoutes": [{"page": "A", "regex": "^/x$"}],
            "staticRoutes": [{"page": "B", "regex": "^/x$"}],
        }
    )
    pages = {"A": "pages/a.html", "B": "pages/b.html"}

    assert origin_request.resolve_uri("/x", routes, pages) == "/a.html"


def test_first_match_wins_within_a_group():
    routes = origin_request.compile_routes(
        {
            "staticRoutes": [
                {"page": "/first", "regex": "^/docs"},
                {"page": "/second", "regex": "^/docs/intro$"},
            ]
        }
    )
    pages = {"/first": "pages/first.html", "/second": "pages/second.html"}

    assert origin_request.resolve_uri("/docs/intro", routes, pages) == "/first.html"


def test_pages_prefix_is_stripped():
    assert origin_request.strip_pages_prefix("pages/foo.html") == "/foo.html"
    assert origin_request.strip_pages_prefix("pages/blog/pages/x.html") == "/blog/pages/x.html"


def test_route_without_regex_or_page_file_is_skipped():
    routes = origin_request.compile_routes(
        {
            "dynamicRoutes": [
                {"page": "/no-regex"},
                {"page": "/missing", "regex": "^/x$"},
            ],
            "staticRoutes": [{"page": "/x", "regex": "^/x$"}],
        }
    )
    pages = {"/no-regex": "pages/no-regex.html", "/x": "pages/x.html"}

    assert origin_request.resolve_uri("/x", routes, pages) == "/x.html"


def test_regex_is_searched_like_js_test():
    routes = origin_request.compile_routes({"staticRoutes": [{"page": "/about", "regex": "about"}]})

    assert origin_request.resolve_uri("/company/about/team", routes, {"/about": "pages/about.html"}) == "/about.html"


def test_js_named_groups_are_supported():
    routes = origin_request.compile_routes(
        {"dynamicRoutes": [{"page": "/blog/[slug]", "regex": "^/blog/(?<slug>[^/]+?)(?:/)?$"}]}
    )
    pages = {"/blog/[slug]": "pages/blog/[slug].html"}

    assert origin_request.resolve_uri("/blog/hello", routes, pages) == "/blog/[slug].html"


def test_no_match_returns_none():
    routes = origin_request.compile_routes({"staticRoutes": [{"page": "/about", "regex": "^/about$"}]})

    assert origin_request.resolve_uri("/contact", routes, {"/about": "pages/about.html"}) is None


def test_handler_with_empty_manifests_returns_request_unchanged():
    event = _event("/anything")

    request = origin_request.handler(event, None)

    assert request["uri"] == "/anything"
    assert request is event["Records"][0]["cf"]["request"]
