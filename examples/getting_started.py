import logging

import hinoto
from hinoto import Request, Response, error_response, read_structured


async def greet(request: Request) -> Response:
    if request.method != "POST":
        return Response.text(f"Hello from {request.path}\n")

    result = await read_structured(request.body)
    if not result.ok:
        return error_response(result.error)
    return Response.json({"hello": result.value})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    hinoto.serve(greet)
