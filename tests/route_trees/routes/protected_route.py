from hotroutes import Route, RouteModule

from .includes.include import require_token


class ProtectedRoute(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = "/protected"
        route.middleware = [require_token]
        return route

    @staticmethod
    async def get(request, response, next_):
        await response.send("Protected route response")
