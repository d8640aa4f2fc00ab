"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

or:

    python run.py

"""

from boqdesk import create_app

# WSGI application object for Flask to run. `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # Direct `python run.py` usage is for development only - use `flask run` or a WSGI server instead.
    app.run(debug=True)
