"""canaryctl - progressive canary rollouts with health-gated promotion."""

__version__ = "0.1.0"
