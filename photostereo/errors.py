### Error taxonomy shared by the solver and the I/O collaborators.


class ConfigurationError(ValueError):
    """The inputs of a solve are inconsistent or unreadable; the solve is aborted."""


class DegenerateInputWarning(UserWarning):
    """Input is usable but degenerate (empty selection, all-zero data, zero normals)."""


class NonConvergenceNotice(UserWarning):
    """Robust refinement used its whole iteration budget without meeting the tolerance."""
