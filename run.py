from hurricane_game import create_app, db
from hurricane_game.models import BadgeDefinition, Prediction, UserBadge

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Prediction": Prediction,
        "BadgeDefinition": BadgeDefinition,
        "UserBadge": UserBadge,
    }


if __name__ == "__main__":
    # The reloader would start a second scoring scheduler
    app.run(host="0.0.0.0", port=5000, debug=True, use_reloader=False)
