#!/usr/bin/env python3
"""Cross-platform install script for trendi-tools.

Usage:
    python install.py               # Install with the Playwright browser
    python install.py --dev         # Editable install plus test dependencies
    python install.py --no-browser  # Catalog only; skip the screenshot browser
    python install.py --seed        # Also load the sample catalog
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)
SAMPLE_URLS = ["https://www.notion.so", "https://www.figma.com"]


def _prepare_data(project_dir: str) -> None:
    data_dir = os.path.join(project_dir, "data")
    os.makedirs(os.path.join(data_dir, "screenshots"), exist_ok=True)
    sample_csv = os.path.join(data_dir, "tools.csv")
    if not os.path.exists(sample_csv):
        with open(sample_csv, "w", encoding="utf-8") as f:
            f.write("URL\n" + "\n".join(SAMPLE_URLS) + "\n")
        print("Created data/tools.csv with sample URLs")


def _copy_configs(project_dir: str) -> None:
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        dst_path = os.path.join(project_dir, dst)
        if os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")
        else:
            shutil.copy(os.path.join(project_dir, src), dst_path)
            print(f"Created {dst} from {src}")


def main() -> None:
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"
    bin_dir = "Scripts" if is_windows else "bin"
    python_exe = os.path.join(venv_dir, bin_dir, "python")

    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])

    target = ["-e", ".[dev]"] if "--dev" in sys.argv else ["."]
    print("Installing trendi-tools...")
    subprocess.check_call([python_exe, "-m", "pip", "install", *target], cwd=project_dir)

    if "--no-browser" not in sys.argv:
        print("Installing Playwright Chromium browser (screenshot stage)...")
        subprocess.check_call([python_exe, "-m", "playwright", "install", "chromium"])

    _prepare_data(project_dir)
    _copy_configs(project_dir)

    if "--seed" in sys.argv:
        subprocess.check_call([python_exe, "-m", "trendi_tools", "seed"], cwd=project_dir)

    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"
    print()
    print("Next steps:")
    print(f"  1. {activate_cmd}")
    print("  2. Set FIRECRAWL_API_KEY, TRENDI_STORAGE_URL and (for chat) ANTHROPIC_API_KEY in .env")
    print("  3. python -m trendi_tools config-check")
    print("  4. python -m trendi_tools enrich --dry-run")
    print()


if __name__ == "__main__":
    main()
