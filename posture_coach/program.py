from typing import Dict, List


class ProgramRecommender:
    """Suggests a follow-on training program once a target is reached."""

    def __init__(self):
        self.recommendation_db = {
            'beginner': [
                "Start with 3 sets of {target} {activity} reps with 60s rest",
                "Focus on controlled movements rather than speed",
                "Hold each correct position until the counter confirms it"
            ],
            'intermediate': [
                "Try 4 sets of {target} {activity} reps with 45s rest",
                "Slow down the lowering phase to three seconds",
                "Add a short pause at the hardest point of the movement"
            ],
            'advanced': [
                "Perform 5 sets of {target} {activity} reps with 30s rest",
                "Add load or a harder variation of the {activity}",
                "Pair the {activity} with a complementary exercise as a superset"
            ],
            'stopped_early': [
                "Finish the remaining reps next session before raising the target"
            ]
        }

    def get_program(self, activity: str, count: int, target: int) -> Dict[str, object]:
        level = self._determine_level(count)
        next_target = self._next_target(count, target)
        tips = [
            tip.format(activity=activity, target=next_target)
            for tip in self.recommendation_db[level]
        ]
        return {
            'activity': activity,
            'level': level,
            'completed': count,
            'next_target': next_target,
            'tips': tips,
        }

    def get_recommendations(self, activity: str, count: int, target: int) -> List[str]:
        recommendations = self.get_program(activity, count, target)['tips'][:2]
        if count < target:
            recommendations.append(self.recommendation_db['stopped_early'][0])
        return recommendations[:3]

    def _determine_level(self, count: int) -> str:
        if count < 10:
            return 'beginner'
        elif 10 <= count < 20:
            return 'intermediate'
        return 'advanced'

    def _next_target(self, count: int, target: int) -> int:
        if count >= target:
            return target + max(1, target // 5)
        return max(1, target)
