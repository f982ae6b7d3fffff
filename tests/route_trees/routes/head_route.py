from hotroutes import Route, RouteModule


class HeadRoute(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = "/head"
        return route

    @staticmethod
    async def head(request, response, next_):
        response.set_status(200)
        await response.end()
