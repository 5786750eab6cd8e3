"""Error types shared by the forecasting and allocation modules."""


class StructuralError(ValueError):
    """Configuration is malformed and the call cannot proceed.

    Raised for programming errors upstream (bad tactic definitions, unknown
    selectors, impossible run counts). Statistical degeneracy such as zero
    capacity or zero variance never raises; it is reported through flags on
    the returned records instead.
    """
