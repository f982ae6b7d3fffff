from hotroutes import Route, RouteModule


class ServerErrorRoute(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.server_error = True
        return route

    @staticmethod
    async def get(request, response, next_):
        response.set_status(500)
        await response.send("Intentional 500 error for testing purposes")
