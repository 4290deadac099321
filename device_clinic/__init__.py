"""
Device Clinic - cardiac device interrogation ingestion service
"""
