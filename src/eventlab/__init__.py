__version__ = "0.1.0"
__description__ = (
    "Kubernetes Events API lab: a producer that emits events against a ConfigMap "
    "and a consumer that watches and filters them"
)
