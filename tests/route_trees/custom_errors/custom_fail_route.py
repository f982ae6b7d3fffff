from hotroutes import Route, RouteModule


class CustomFailRoute(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = "/customFail"
        return route

    @staticmethod
    async def get(request, response, next_):
        raise Exception("Intentional error for testing purposes")
