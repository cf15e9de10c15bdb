"""TrancheApply: tranche filtering of recalibrated variant calls in one streaming pass.

Public API is intentionally small; most users should use the CLI:

    trancheapply apply --input calls.vcf.gz --recal calls.recal.vcf.gz \\
        --tranches-file calls.tranches --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
