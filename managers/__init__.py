"""Manager modules for the ssam-replicate dev server plugin"""

from managers.export_manager import ensure_dir, export_outputs, save_remote_file
from managers.options_manager import load_options

__all__ = ["ensure_dir", "export_outputs", "save_remote_file", "load_options"]
