import re

from hotroutes import Route, RouteModule


class DirectoryRoute(RouteModule):
    """Answers every path ending in a slash."""

    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = re.compile(r".*/$")
        return route

    @staticmethod
    def get(request, response, next_):
        response.body(f"Directory route response: {request.url.path}")
