from cleanrota.modules.operations.ops import DailyTasks, OperationsManager

__all__ = ["DailyTasks", "OperationsManager"]
