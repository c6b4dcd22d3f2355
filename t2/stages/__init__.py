"""Pipeline stages: accumulation, feature mapping, clustering, selection, filtering.

Each stage exposes a small, pure function API (the accumulator excepted) and
is parameterised by the values in ``t2.config.PipelineConfig``.
"""
