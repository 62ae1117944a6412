"""Console output for preview and push."""

from __future__ import annotations

import sys
from typing import Callable, TextIO

from .models import Correction


class ConsolePrinter:
    """Prints corrections and prompts the operator."""

    def __init__(
        self,
        out: TextIO | None = None,
        prompt: Callable[[str], str] = input,
        verbose: bool = False,
    ):
        self.out = out or sys.stdout
        self.prompt = prompt
        self.verbose = verbose

    def write(self, text: str) -> None:
        self.out.write(text + "\n")
        self.out.flush()

    def start_domain(self, zone: str) -> None:
        self.write(f"******************** Domain: {zone}")

    def start_dns_provider(self, name: str, skip: bool) -> None:
        suffix = " (skipping)" if skip else ""
        if skip or self.verbose:
            self.write(f"----- DNS Provider: {name}...{suffix}")

    def start_registrar(self, name: str, skip: bool) -> None:
        suffix = " (skipping)" if skip else ""
        if skip or self.verbose:
            self.write(f"----- Registrar: {name}...{suffix}")

    def print_report(self, index: int, correction: Correction) -> None:
        self.write(f"INFO#{index + 1}: {correction.msg}")

    def print_correction(self, index: int, correction: Correction) -> None:
        self.write(f"#{index + 1}: {correction.msg}")

    def end_correction(self, error: Exception | None) -> None:
        if error is None:
            self.write("SUCCESS!")
        else:
            self.write(f"FAILURE! {error}")

    def prompt_to_run(self) -> str:
        """Return ``y`` (run), ``n`` (skip) or ``s`` (skip everything left)."""
        try:
            answer = self.prompt("Run? (y/N/s) ").strip().lower()
        except EOFError:
            return "n"
        if answer in {"y", "yes"}:
            return "y"
        if answer in {"s", "skip"}:
            return "s"
        return "n"

    def error(self, msg: str) -> None:
        self.write(f"ERROR: {msg}")
