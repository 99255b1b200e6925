class UniformFitError(Exception):
    """Base exception for the uniform fit engine"""
    pass


class NoPoseDetectedError(UniformFitError):
    """Detector returned no pose for the capture"""
    pass


class InsufficientKeypointsError(UniformFitError):
    """Too few confident keypoints; the user should reposition and retry"""

    def __init__(self, valid_count: int, required: int):
        super().__init__(f"Only {valid_count} valid keypoints detected, {required} required")
        self.valid_count = valid_count
        self.required = required


class ScaleUndefinedError(UniformFitError):
    """Pixel to centimetre scale cannot be established"""
    pass


class NoCandidatesError(UniformFitError):
    """Catalog matching found no size to compare against"""
    pass


class CaptureError(UniformFitError):
    """Camera or detector level failure"""
    pass


class CatalogError(UniformFitError):
    """Catalog store could not be reached"""
    pass


class SessionStateError(UniformFitError):
    """Operation not allowed in the current session state"""
    pass


class CaptureInProgressError(SessionStateError):
    """A capture is already running for this session"""
    pass


class SessionNotFoundError(UniformFitError):
    """Session id unknown or expired"""
    pass
