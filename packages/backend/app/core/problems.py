from fastapi.responses import JSONResponse


ERROR_TYPE_BASE = "https://canvasvault.dev/errors"


def problem_response(status: int, title: str, detail: str, type_: str = "about:blank") -> JSONResponse:
    return JSONResponse(
        status_code=status,
        media_type="application/problem+json",
        content={
            "type": type_,
            "title": title,
            "status": status,
            "detail": detail,
        },
    )


def bad_request(detail: str, slug: str = "validation-error") -> JSONResponse:
    return problem_response(
        status=400,
        title="Bad Request",
        detail=detail,
        type_=f"{ERROR_TYPE_BASE}/{slug}",
    )


def not_found(detail: str, slug: str) -> JSONResponse:
    return problem_response(
        status=404,
        title="Not Found",
        detail=detail,
        type_=f"{ERROR_TYPE_BASE}/{slug}",
    )
