from . import push

__all__ = ["push"]
