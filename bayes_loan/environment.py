"""
Environment Check

Reports whether the Bayesian modelling stack is installed and whether PyMC
can compile its models with a C++ compiler.
"""

import logging
import platform
import shutil
from importlib import metadata
from typing import Dict, Any, List, Optional

from .config import MODELLING_PACKAGES

logger = logging.getLogger(__name__)


def _package_version(name: str) -> Optional[str]:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return None


def _compiler_available() -> bool:
    """True when pytensor has a usable C++ compiler configured."""
    try:
        import pytensor
    except ImportError:
        return shutil.which("g++") is not None or shutil.which("clang++") is not None
    return bool(pytensor.config.cxx)


def check_environment(packages: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Collect versions of the modelling stack.

    Args:
        packages: Distribution names to check. Defaults to MODELLING_PACKAGES.

    Returns:
        Dictionary with python version, per-package versions (None when
        missing), the list of missing packages and compiler availability.
    """
    packages = packages or MODELLING_PACKAGES
    versions = {name: _package_version(name) for name in packages}
    missing = [name for name, version in versions.items() if version is None]

    if missing:
        logger.warning(f"Missing modelling packages: {missing}")

    report = {
        "python": platform.python_version(),
        "packages": versions,
        "missing": missing,
        "compiler_available": _compiler_available(),
    }
    if not report["compiler_available"]:
        logger.warning("No C++ compiler found; PyMC will fall back to slow Python mode")

    return report


def require_modelling_stack(packages: Optional[List[str]] = None) -> None:
    """Raise RuntimeError if any modelling package is missing."""
    missing = check_environment(packages)["missing"]
    if missing:
        raise RuntimeError(
            f"Missing required packages: {', '.join(missing)}. "
            f"Install them with: pip install {' '.join(missing)}"
        )


def format_environment(report: Dict[str, Any]) -> str:
    """Render an environment report as aligned text lines."""
    lines = [f"python     {report['python']}"]
    for name, version in report["packages"].items():
        lines.append(f"{name:<10} {version or 'NOT INSTALLED'}")
    lines.append(f"compiler   {'yes' if report['compiler_available'] else 'no'}")
    return "\n".join(lines)
