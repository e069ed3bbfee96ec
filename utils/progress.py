import sys


class ProgressPrinter:
    """In-place percentage lines for long running copies."""

    def __init__(self, stream=None, indent='    '):
        self.stream = stream or sys.stdout
        self.indent = indent

    def update(self, processed, total):
        if total:
            percent = min(100, int(processed * 100 / total))
            label = f"{processed}/{total}"
        else:
            percent = 100 if processed else 0
            label = f"{processed}/?"
        self.stream.write(f"\r{self.indent}• {percent}% ({label})")
        self.stream.flush()

    def done(self, processed, total=None):
        total = processed if total is None else total
        self.stream.write(f"\r{self.indent}• 100% ({processed}/{total})\n")
        self.stream.flush()
