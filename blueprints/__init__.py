"""
Blueprint registration for Study Log.

Blueprints carry their full URL paths; none are registered with a prefix.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.dashboard import bp as dashboard_bp
    from blueprints.activities import bp as activities_bp
    from blueprints.plans import bp as plans_bp
    from blueprints.achievements import bp as achievements_bp
    from blueprints.leaderboard import bp as leaderboard_bp
    from blueprints.stats import bp as stats_bp
    from blueprints.pomodoro import bp as pomodoro_bp
    from blueprints.teacher import bp as teacher_bp
    from blueprints.admin import bp as admin_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(plans_bp)
    app.register_blueprint(achievements_bp)
    app.register_blueprint(leaderboard_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(pomodoro_bp)
    app.register_blueprint(teacher_bp)
    app.register_blueprint(admin_bp)
