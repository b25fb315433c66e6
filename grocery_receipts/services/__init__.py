"""
Adapters for the external collaborators: blob storage, AI extraction, identity.
"""
