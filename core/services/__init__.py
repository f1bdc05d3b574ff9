from .data_quality import run_data_quality_checks

__all__ = ["run_data_quality_checks"]
