"""
Advisor Chooser backend: advisor membership billing and seller matching.
"""
