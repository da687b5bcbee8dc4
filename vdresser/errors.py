from __future__ import annotations


class VDresserError(Exception):
    """Base class for errors raised by vdresser components."""


class InitializationFailure(VDresserError):
    """The landmark source could not be loaded."""


class DetectionUnavailable(VDresserError):
    """Detection could not run for this frame. Transient."""


class AdjustmentError(VDresserError):
    pass


class AdjustmentTransportFailure(AdjustmentError):
    """Network, timeout or API status failure talking to the fit advisor."""


class AdjustmentValidationFailure(AdjustmentError):
    """The fit advisor answered with something that does not match the parameter schema."""


class GarmentLoadError(VDresserError):
    pass


class ConfigError(VDresserError):
    pass
