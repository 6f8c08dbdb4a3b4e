from couplesync.services import task_lifecycle, task_service


__all__ = [
    "task_lifecycle",
    "task_service",
]
