"""
Report output module.
"""
