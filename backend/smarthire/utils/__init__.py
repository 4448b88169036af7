"""SmartHire Utilities"""
