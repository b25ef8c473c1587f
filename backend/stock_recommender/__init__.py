"""Smart stock recommender backend."""
