from lms_progress.health.router import router


__all__ = ["router"]
