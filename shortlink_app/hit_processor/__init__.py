from .click_recorder import ClickRecorder, ClickJob

__all__ = ["ClickRecorder", "ClickJob"]
