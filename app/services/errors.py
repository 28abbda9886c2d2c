GENERIC_ANALYSIS_ERROR = (
    "An error occurred while analysing the images. "
    "Please try again later. (Check your API key.)"
)


class ImageEncodingError(Exception):
    """The image could not be read for encoding."""


class InferenceError(RuntimeError):
    """Any failure of the inference call: transport, empty body or bad payload."""


class InvalidTransition(Exception):
    """The requested action is not allowed in the current session state."""
