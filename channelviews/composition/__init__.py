"""
View composition: join → aggregate → enrich → project, per declared view.

Route handlers only need ``compose`` and ``ViewType``.
"""
from channelviews.composition.pipeline import CompositionPipeline, Stage, ViewDefinition
from channelviews.composition.views import VIEWS, ViewType, compose, get_view

__all__ = [
    "CompositionPipeline",
    "Stage",
    "VIEWS",
    "ViewDefinition",
    "ViewType",
    "compose",
    "get_view",
]
