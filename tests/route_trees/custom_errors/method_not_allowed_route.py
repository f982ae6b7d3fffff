from hotroutes import Route, RouteModule


class MethodNotAllowedRoute(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.method_not_allowed = True
        return route

    @staticmethod
    async def get(request, response, next_):
        response.set_status(405)
        await response.send("Intentional 405 error for testing purposes")
