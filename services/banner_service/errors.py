"""Error types raised by the banner pipeline.

Each carries the HTTP status the request handler reports it with; the handler
turns any of them into a ``{"error": message}`` JSON body.
"""


class OverlayError(Exception):
    status_code = 500
    default_message = "Failed to generate image"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequestError(OverlayError):
    status_code = 400
    default_message = "Invalid request"


class ImageDecodeError(OverlayError):
    status_code = 400
    default_message = "Invalid image data"


class ImageFetchError(OverlayError):
    default_message = "Failed to fetch image"


class TemplateNotFoundError(OverlayError):
    status_code = 404
    default_message = "Template not found"


class RenderError(OverlayError):
    """The SVG rasterizer rejected the overlay or is unavailable."""

    default_message = "Failed to render overlay"


class ImageTooLargeError(OverlayError):
    status_code = 413
    default_message = "Image data too large"
