"""
叙事战斗结算引擎

回合制战斗：目标解析、伤害规则、状态效果、回合状态机与叙事上下文。
"""
