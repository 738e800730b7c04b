# app.py

import os

from anon_tracker.app import create_app

app = create_app()

# ===============================
# Render / Local Run
# ===============================
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
