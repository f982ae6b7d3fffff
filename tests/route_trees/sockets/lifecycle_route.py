from hotroutes import Route, RouteModule


class LifecycleRoute(RouteModule):
    seen = []

    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = "/lifecycle"
        route.web_socket = True
        return route

    @classmethod
    def headers(cls, session, lines, request):
        cls.seen.append(("headers", any(line.startswith("host: ") for line in lines)))

    @classmethod
    async def connection(cls, session, request):
        cls.seen.append(("connection",))
        await session.send("ready")

    @classmethod
    def listening(cls, session):
        cls.seen.append(("listening",))

    @classmethod
    async def message(cls, session, data):
        cls.seen.append(("message", data))
        if data == "bye":
            await session.close(4000, "bye")

    @classmethod
    def close(cls, session, code):
        cls.seen.append(("close", code))
