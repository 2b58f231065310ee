"""reintro_pva: Viability of small reintroduced populations.

A stage-structured projection engine for translocated amphibian
populations:
  - Projection matrix built from adult survival estimates (translocated
    founders vs locally recruited adults), recruitment probability and
    fecundity
  - Deterministic analysis: growth rate λ, sensitivity, elasticity
  - Monte Carlo simulation with beta-binomial survival and
    negative-binomial recruitment, summarized as extinction-probability
    curves and recruitment-probability sweeps

Survival estimates and their credible intervals come from an upstream
mark-recapture survival model; this package consumes only the numbers.
"""

__version__ = "0.1.0"
