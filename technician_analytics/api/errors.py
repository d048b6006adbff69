"""
Mapping of analytics errors onto HTTP errors for the routers.

- EmptyCohort -> 404
- InvalidWindow -> 422
- SourceUnavailable -> 503 (a store the answer cannot do without)
- anything else -> 500 (logged with traceback)
"""

import logging

from fastapi import HTTPException

from technician_analytics.core.exceptions import EmptyCohort, InvalidWindow, SourceUnavailable


def to_http_exception(error: Exception, action: str, logger: logging.Logger) -> HTTPException:
    """
    Convert an exception raised by the engine into an HTTPException.

    Args:
        error: Exception raised while serving the request.
        action: Short description used in the 500 detail, e.g.
            "fetch cohort performance".
        logger: Router logger for the error record.

    Returns:
        HTTPException to raise from the endpoint.
    """
    if isinstance(error, EmptyCohort):
        logger.warning(f"Cannot {action}: {error}")
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, InvalidWindow):
        logger.warning(f"Cannot {action}: {error}")
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, SourceUnavailable):
        logger.warning(f"Cannot {action}: {error}")
        return HTTPException(status_code=503, detail=str(error))

    logger.error(f"Error while trying to {action}: {str(error)}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(error)}")
