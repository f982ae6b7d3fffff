class HotRoutesException(Exception):
    """Base exception for hotroutes."""
    status_code = 500  # Default status code
    message: str

    def __init__(self, message: str | None = None, *args):
        super().__init__(message, *args)
        if message is not None:
            self.message = message
        elif args and args[0]:
            self.message = str(args[0])
        else:
            self.message = self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class HTTPError(HotRoutesException):
    """An error that carries a status code meant for the client.

    Mirrors the http-errors convention: errors below 500 are exposed to the
    client by default, server errors are not unless ``expose`` is passed.

    Examples:
        ```python
        class Orders(RouteModule):
            @staticmethod
            def get(request, response, next_):
                next_(HTTPError(503, "Orders are offline", expose=True))
        ```
    """

    def __init__(self, status_code: int, message: str | None = None, *, expose: bool | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.expose = status_code < 500 if expose is None else expose


class RouteDefinitionError(HotRoutesException):
    """Raised while building the registry when a handler module is malformed."""

    def __init__(self, message: str, *, file=None, name: str | None = None):
        super().__init__(message)
        self.file = file
        self.name = name


class HeadersAlreadySentError(HotRoutesException):
    """Raised when a final response is attempted after the response started."""

    def __init__(self, message: str = "Headers already sent."):
        super().__init__(message)
