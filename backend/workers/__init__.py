# Workers: standalone processes sharing the database with the API.
# Run from backend/ with:
#   python -m workers.whale_worker
#   python -m workers.validate_chain
