"""
Autograd graph, graph-construction protocol, and the backward engine.
"""
