"""Field Estimator — pricing and cost-allocation engine for field-service contractors."""

__version__ = "0.1.0"
