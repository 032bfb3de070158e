"""
API clients for the LayerEdge node bot.

Submodules:
    layeredge: ``LayerEdgeClient`` binding one wallet identity and proxy to
        the LayerEdge referral, light-node, and task endpoints.
"""
