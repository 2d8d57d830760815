"""
Pipeline Tree Module
====================

Responsibility:
- Lazily expanded tree over stage orderings and model choices.
- Structural constraints between stages (exclusivity, repetition limits).
- Random root-to-leaf sampling of pipeline candidates, optionally biased
  by observed fitness through a softmax over child means.
"""

from .pipeline_tree import PipelineTree, TreeNode

__all__ = ['PipelineTree', 'TreeNode']
