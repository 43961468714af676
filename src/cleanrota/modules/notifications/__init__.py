from cleanrota.modules.notifications.notifier import StaffNotifier

__all__ = ["StaffNotifier"]
